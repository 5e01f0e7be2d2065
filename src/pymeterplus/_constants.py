"""Internal constants shared across the library."""

BASE_URL = "https://api.switch-bot.com/v1.0"
USER_AGENT = "pymeterplus"

# ------------------------------------------------------------------
# OpenAPI status codes (``statusCode`` field of every response body)
# ------------------------------------------------------------------

API_SUCCESS_CODE = 100

API_STATUS_MESSAGES: dict[int, str] = {
    151: "Device type does not support this command",
    152: "Device not found",
    160: "Command is not supported",
    161: "Device is offline",
    171: "Hub device is offline",
    190: "Device internal error due to device states not synchronized with server",
}

# ------------------------------------------------------------------
# BLE advertisement format
# ------------------------------------------------------------------

SERVICE_DATA_UUIDS: tuple[str, ...] = (
    "0000fd3d-0000-1000-8000-00805f9b34fb",
    "00000d00-0000-1000-8000-00805f9b34fb",
)
METER_PLUS_MODEL_CODE = "i"
METER_SERVICE_DATA_LENGTH = 6
DIAGNOSTIC_SCAN_SECONDS = 10.0

# ------------------------------------------------------------------
# Reading bounds and defaults
# ------------------------------------------------------------------

TEMPERATURE_MIN_C = -273.15
TEMPERATURE_MAX_C = 100.0
LOW_BATTERY_THRESHOLD = 15

DEFAULT_SCAN_WINDOW_SECONDS = 1
DEFAULT_REFRESH_PERIOD_SECONDS = 300
DEFAULT_REQUEST_TIMEOUT = 10.0

MODEL_NUMBER = "W2301500"
MODEL_NUMBER_JP = "W2201500"
JP_DEVICE_TYPE = "Meter Plus (JP)"
