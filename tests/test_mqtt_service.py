import json
import threading
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt

from circulation.services.events import LibraryDeleted
from circulation.services.mqtt_service import MQTTService


def make_event(clock):
    return LibraryDeleted(occurred_at=clock(), library_id="lib-1", library_name="Main Library")


def test_topic_uses_prefix_and_event_name(clock):
    service = MQTTService(topic_prefix="campus/library/")
    assert service.topic_for(make_event(clock)) == "campus/library/LibraryDeleted"


def test_publishes_json_when_connected(clock):
    service = MQTTService(topic_prefix="library/events")
    service.client = MagicMock()
    service.client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
    service.is_connected = True

    service.handle_event(make_event(clock))

    topic, payload = service.client.publish.call_args.args
    assert topic == "library/events/LibraryDeleted"
    assert json.loads(payload)["library_id"] == "lib-1"
    assert service.client.publish.call_args.kwargs == {"qos": 1}
    assert service.published_count == 1


def test_drops_event_when_disconnected(clock):
    service = MQTTService(topic_prefix="library/events")
    service.handle_event(make_event(clock))
    assert service.dropped_count == 1
    assert service.published_count == 0


def test_failed_publish_is_counted(clock):
    service = MQTTService(topic_prefix="library/events")
    service.client = MagicMock()
    service.client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_NO_CONN)
    service.is_connected = True

    service.handle_event(make_event(clock))
    assert service.dropped_count == 1


def test_connection_callbacks_track_state():
    service = MQTTService()
    service.on_connect(None, None, None, MagicMock(is_failure=False))
    assert service.is_connected is True
    service.on_disconnect(None, None, None, MagicMock(is_failure=True))
    assert service.is_connected is False


def test_status_reports_counters():
    service = MQTTService(topic_prefix="library/events")
    status = service.status()
    assert status["connected"] is False
    assert status["topicPrefix"] == "library/events"
    assert status["published"] == 0


def test_counters_are_exact_under_parallel_publishers(clock):
    service = MQTTService(topic_prefix="library/events")
    service.client = MagicMock()
    service.client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
    service.is_connected = True
    event = make_event(clock)

    def publish_many():
        for _ in range(200):
            service.handle_event(event)

    workers = [threading.Thread(target=publish_many) for _ in range(8)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert service.published_count == 1600
    assert service.dropped_count == 0
