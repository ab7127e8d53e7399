import os

from mqtt_google_home import __version__

__all__ = [
    "FULFILLMENT_SRV_START_TASK_NAME",
    "GH_AGENT_USER_ID",
    "GH_CLOUD_MAX_RETRIES",
    "GH_CLOUD_TIMEOUT",
    "GH_CONFIG_FILE_PATH",
    "GH_CONFIG_POLL_INTERVAL",
    "GH_DEBUG",
    "GH_ENABLE_METRICS",
    "GH_FULFILLMENT_TOKEN",
    "GH_HOMEGRAPH_API_BASE",
    "GH_HOMEGRAPH_TOKEN",
    "GH_HOMEGRAPH_TOKEN_FILE",
    "GH_LOG_FORMAT",
    "GH_LOG_HUMAN_OUTPUT",
    "GH_LOG_JSON_FILE",
    "GH_METRICS_PORT",
    "GH_MQTT_CLIENT_ID",
    "GH_MQTT_CONN_DELAY",
    "GH_MQTT_HOST",
    "GH_MQTT_PASS",
    "GH_MQTT_PORT",
    "GH_MQTT_USER",
    "GH_PERF_THRESHOLD_MS",
    "GH_PERF_TRACKING",
    "GH_SRV_HOST",
    "GH_SRV_PORT",
    "GH_TOPIC_ROOT",
    "GH_VERSION",
    "HUB_DISPATCH_TASK_PREFIX",
    "MQTT_CLIENT_START_TASK_NAME",
    "REQUEST_SYNC_SUFFIX",
    "WATCHER_START_TASK_NAME",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")

GH_VERSION: str = __version__


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    try:
        return float(raw) if raw else default
    except (ValueError, TypeError):
        return default


# MQTT broker
GH_MQTT_HOST: str = os.environ.get("GH_MQTT_HOST", "localhost")
GH_MQTT_PORT: int = _int_env("GH_MQTT_PORT", 1883)
GH_MQTT_USER: str | None = os.environ.get("GH_MQTT_USER") or None
GH_MQTT_PASS: str | None = os.environ.get("GH_MQTT_PASS") or None
GH_MQTT_CLIENT_ID: str = os.environ.get("GH_MQTT_CLIENT_ID", "mqtt_google_home")
GH_MQTT_CONN_DELAY: int = _int_env("GH_MQTT_CONN_DELAY", 10)

# Topic root for bridge control messages, "<root>/REQUEST_SYNC" triggers a sync
GH_TOPIC_ROOT: str = os.environ.get("GH_TOPIC_ROOT", "google/home").rstrip("/")
REQUEST_SYNC_SUFFIX: str = "REQUEST_SYNC"

# Device configuration
GH_CONFIG_FILE_PATH: str = os.environ.get("GH_CONFIG_FILE_PATH", "/config/googleDevices.yaml")
GH_CONFIG_POLL_INTERVAL: float = _float_env("GH_CONFIG_POLL_INTERVAL", 5.0)

# Home Graph API
GH_AGENT_USER_ID: str = os.environ.get("GH_AGENT_USER_ID", "mqtt-google-home")
GH_HOMEGRAPH_API_BASE: str = os.environ.get("GH_HOMEGRAPH_API_BASE", "https://homegraph.googleapis.com/v1/")
GH_HOMEGRAPH_TOKEN: str | None = os.environ.get("GH_HOMEGRAPH_TOKEN") or None
GH_HOMEGRAPH_TOKEN_FILE: str | None = os.environ.get("GH_HOMEGRAPH_TOKEN_FILE") or None
GH_CLOUD_TIMEOUT: int = _int_env("GH_CLOUD_TIMEOUT", 8)
GH_CLOUD_MAX_RETRIES: int = _int_env("GH_CLOUD_MAX_RETRIES", 3)

# Fulfillment HTTP server
GH_SRV_HOST: str = os.environ.get("GH_SRV_HOST", "0.0.0.0")
GH_SRV_PORT: int = _int_env("GH_SRV_PORT", 5000)
GH_FULFILLMENT_TOKEN: str | None = os.environ.get("GH_FULFILLMENT_TOKEN") or None

# Prometheus exporter
GH_ENABLE_METRICS: bool = os.environ.get("GH_ENABLE_METRICS", "0").casefold() in YES_ANSWER
GH_METRICS_PORT: int = _int_env("GH_METRICS_PORT", 9108)

GH_DEBUG = os.environ.get("GH_DEBUG", "0").casefold() in YES_ANSWER

# Logging Configuration
GH_LOG_FORMAT: str = os.environ.get("GH_LOG_FORMAT", "human")  # "json", "human", or "both"
GH_LOG_JSON_FILE: str = os.environ.get("GH_LOG_JSON_FILE", "/var/log/mqtt_google_home.json")
GH_LOG_HUMAN_OUTPUT: str = os.environ.get("GH_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path

# Performance Instrumentation
GH_PERF_TRACKING: bool = os.environ.get("GH_PERF_TRACKING", "true").casefold() in YES_ANSWER
_perf_threshold = os.environ.get("GH_PERF_THRESHOLD_MS", "250")
GH_PERF_THRESHOLD_MS: int = int(_perf_threshold) if _perf_threshold and _perf_threshold.isdigit() else 250

MQTT_CLIENT_START_TASK_NAME = "MQTTClient_START"
WATCHER_START_TASK_NAME = "ConfigWatcher_START"
FULFILLMENT_SRV_START_TASK_NAME = "FulfillmentServer_START"
HUB_DISPATCH_TASK_PREFIX = "MessageHub_DISPATCH"
