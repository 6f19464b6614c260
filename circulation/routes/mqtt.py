from fastapi import APIRouter
from circulation.services.mqtt_service import mqtt_service

router = APIRouter(prefix="/api/mqtt", tags=["MQTT"])

@router.get("/status")
async def get_mqtt_status():
    """Get MQTT notification sink status."""
    return mqtt_service.status()
