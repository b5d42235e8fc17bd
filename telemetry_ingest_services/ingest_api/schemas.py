from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .core.domain.reading import Reading, ReadingStatistics


class SensorReadingOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    device_id: str = Field(..., alias="deviceId")
    temperature: float
    humidity: float
    timestamp: datetime

    @classmethod
    def from_reading(cls, reading: Reading) -> "SensorReadingOut":
        return cls(
            id=reading.id,
            device_id=reading.device_id,
            temperature=reading.temperature,
            humidity=reading.humidity,
            timestamp=reading.timestamp,
        )


class StatisticsOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_readings: int = Field(..., alias="totalReadings")
    average_temperature: float = Field(..., alias="averageTemperature")
    average_humidity: float = Field(..., alias="averageHumidity")
    min_temperature: float = Field(..., alias="minTemperature")
    max_temperature: float = Field(..., alias="maxTemperature")
    min_humidity: float = Field(..., alias="minHumidity")
    max_humidity: float = Field(..., alias="maxHumidity")

    @classmethod
    def from_statistics(cls, stats: ReadingStatistics) -> "StatisticsOut":
        return cls(
            total_readings=stats.count,
            average_temperature=stats.avg_temperature,
            average_humidity=stats.avg_humidity,
            min_temperature=stats.min_temperature,
            max_temperature=stats.max_temperature,
            min_humidity=stats.min_humidity,
            max_humidity=stats.max_humidity,
        )
