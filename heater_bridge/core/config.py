from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Heater Bridge"

    # Heater switch
    heater_serial: Optional[str] = None
    actuator_mode: str = Field(default="wemo")  # "wemo" or "sim"
    discovery_timeout_seconds: float = 10.0

    # Set-point in °F
    desired_temp: float = 68.0

    # Ambient Weather
    ambient_weather_mac_address: Optional[str] = None
    ambient_weather_api_key: Optional[str] = None
    ambient_weather_application_key: Optional[str] = None
    ambient_weather_base_url: str = "https://rt.ambientweather.net/v1"
    ambient_weather_realtime_url: str = "https://rt2.ambientweather.net"
    ambient_weather_timeout_seconds: float = 10.0
    poll_seconds: int = 300
    poll_enabled: bool = True
    realtime_enabled: bool = True

    # MQTT, host is "mqtt://host:1883", "mqtts://host:8883" or a bare hostname
    mqtt_enabled: bool = True
    mqtt_host: Optional[str] = None
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    mqtt_topic: Optional[str] = None

    # Metrics endpoint
    metrics_enabled: bool = True
    metrics_host: str = "0.0.0.0"
    metrics_port: int = 9100

    # Logging, empty log_file disables the rotating file
    log_level: str = "INFO"
    log_file: str = "heater_bridge.log"


settings = Settings()
