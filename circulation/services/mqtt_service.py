import json
import logging
import threading
import ssl
from pathlib import Path
from typing import Optional
import paho.mqtt.client as mqtt
from circulation.config import settings
from circulation.services.events import DomainEvent
from circulation.utils.timezone import now_local

logger = logging.getLogger(__name__)


class MQTTService:
    """MQTT notification sink: publishes circulation domain events to the broker.

    Delivery is best effort. Events produced while the broker is unreachable
    are logged and dropped, never retried, and never fail the originating write.
    """

    def __init__(self, topic_prefix: Optional[str] = None):
        self.client: Optional[mqtt.Client] = None
        self.is_connected = False
        self.topic_prefix = (topic_prefix or settings.mqtt_topic_prefix).rstrip("/")
        self._lock = threading.Lock()
        self.published_count = 0
        self.dropped_count = 0

    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback when MQTT client connects to broker."""
        if not reason_code.is_failure:
            self.is_connected = True
            logger.info(f"MQTT client connected to {settings.mqtt_broker}:{settings.mqtt_port}")
        else:
            logger.error(f"MQTT connection failed: {reason_code}")
            self.is_connected = False

    def on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """Callback when MQTT client disconnects from broker."""
        self.is_connected = False
        if reason_code.is_failure:
            logger.warning(f"MQTT client disconnected unexpectedly ({reason_code})")
        else:
            logger.info("MQTT client disconnected")

    def topic_for(self, event: DomainEvent) -> str:
        return f"{self.topic_prefix}/{event.name}"

    def handle_event(self, event: DomainEvent):
        """EventBus handler: publish the event as JSON with QoS 1."""
        topic = self.topic_for(event)
        client = self.client
        if not (client and self.is_connected):
            with self._lock:
                self.dropped_count += 1
            logger.warning(f"MQTT client not connected, dropping {event.name} for {topic}")
            return

        payload = json.dumps(event.to_dict())
        result = client.publish(topic, payload, qos=1)
        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            with self._lock:
                self.published_count += 1
            logger.info(f"Published {event.name} to {topic}")
        else:
            with self._lock:
                self.dropped_count += 1
            logger.error(f"Failed to publish {event.name} to {topic}: rc={result.rc}")

    def _setup_tls(self):
        """Configure TLS/SSL for MQTT connection."""
        if not settings.mqtt_use_tls:
            return

        if not settings.mqtt_ca_cert:
            raise ValueError("mqtt_ca_cert is required when mqtt_use_tls is enabled")

        ca_cert_path = Path(settings.mqtt_ca_cert)
        if not ca_cert_path.exists():
            logger.error(f"CA certificate file not found: {ca_cert_path}")
            raise FileNotFoundError(f"CA certificate file not found: {ca_cert_path}")

        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=str(ca_cert_path))

        # Mutual TLS when a client certificate is configured
        if settings.mqtt_client_cert and settings.mqtt_client_key:
            client_cert_path = Path(settings.mqtt_client_cert)
            client_key_path = Path(settings.mqtt_client_key)
            if not client_cert_path.exists():
                logger.error(f"Client certificate file not found: {client_cert_path}")
                raise FileNotFoundError(f"Client certificate file not found: {client_cert_path}")
            if not client_key_path.exists():
                logger.error(f"Client key file not found: {client_key_path}")
                raise FileNotFoundError(f"Client key file not found: {client_key_path}")
            context.load_cert_chain(certfile=str(client_cert_path), keyfile=str(client_key_path))
            logger.info("MQTT mutual TLS configured")

        if settings.mqtt_tls_insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            logger.warning("MQTT TLS certificate verification disabled (mqtt_tls_insecure=True)")

        self.client.tls_set_context(context)
        logger.info("MQTT TLS configured")

    def connect(self):
        """Connect to the MQTT broker. Failures are logged; paho keeps retrying in the background."""
        try:
            with self._lock:
                if self.client is not None:
                    return

                client_id = f"{settings.mqtt_client_id_prefix}-{int(now_local().timestamp())}"
                self.client = mqtt.Client(
                    mqtt.CallbackAPIVersion.VERSION2,
                    client_id=client_id,
                    clean_session=True,
                )
                self.client.on_connect = self.on_connect
                self.client.on_disconnect = self.on_disconnect

                if settings.mqtt_use_tls:
                    self._setup_tls()
                    if settings.mqtt_port == 1883:
                        logger.warning("TLS enabled but port is 1883. Consider using port 8883 for MQTT over TLS.")

                if settings.mqtt_username and settings.mqtt_password:
                    self.client.username_pw_set(settings.mqtt_username, settings.mqtt_password)

                protocol = "TLS" if settings.mqtt_use_tls else "TCP"
                logger.info(f"Connecting to MQTT broker at {settings.mqtt_broker}:{settings.mqtt_port} over {protocol}")
                try:
                    self.client.connect(settings.mqtt_broker, settings.mqtt_port, keepalive=60)
                except OSError as conn_error:
                    logger.warning(f"Initial MQTT connection failed: {conn_error}. The service will retry automatically.")
                # Network loop runs in its own thread and handles reconnection
                self.client.loop_start()

        except (OSError, ValueError) as e:
            logger.error(f"Error setting up MQTT client: {e}", exc_info=True)
            self.client = None
            self.is_connected = False

    def disconnect(self):
        """Disconnect from MQTT broker."""
        with self._lock:
            if self.client:
                self.client.loop_stop()
                self.client.disconnect()
                self.client = None
                self.is_connected = False
                logger.info("MQTT client disconnected")

    def is_running(self) -> bool:
        """Check if MQTT service is running and connected."""
        return self.is_connected and self.client is not None

    def status(self) -> dict:
        return {
            "enabled": settings.mqtt_enabled,
            "connected": self.is_connected,
            "running": self.is_running(),
            "topicPrefix": self.topic_prefix,
            "published": self.published_count,
            "dropped": self.dropped_count,
        }


mqtt_service = MQTTService()
