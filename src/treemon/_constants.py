"""Internal constants shared across the library."""

MQTT_BROKER_URL = "wss://mqtt.thws.education/mqtt"
MQTT_USERNAME = "trees"
MQTT_PASSWORD = "trees"
MQTT_BASE_TOPIC = "mapfeed/thws-trees/#"

# Values shipped in example configs; never sent to the broker.
MQTT_USERNAME_PLACEHOLDER = "YOUR_MQTT_USERNAME"
MQTT_PASSWORD_PLACEHOLDER = "YOUR_MQTT_PASSWORD"

MQTT_CONNECT_TIMEOUT_S = 10.0
MQTT_RECONNECT_PERIOD_S = 5.0

INFLUXDB_URL = "https://influx.thws.education/api/v2/query"
INFLUXDB_ORG = "cps-lab"
INFLUXDB_BUCKET = "lorapub30d"
INFLUXDB_LOOKBACK = "-30d"

HISTORY_REFRESH_PERIOD_S = 5 * 60.0
RELATIVE_TIME_INTERVAL_S = 30.0

# Returned by sensor-id resolution when neither the payload nor the topic name one.
UNKNOWN_SENSOR_ID = "unknown_sensor"

WAITING_FOR_DATA_TEXT = "Waiting for data..."
