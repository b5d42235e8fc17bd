from .mqtt_adapter import ParseResult, SensorReadingPayload, parse_payload

__all__ = ["ParseResult", "SensorReadingPayload", "parse_payload"]
