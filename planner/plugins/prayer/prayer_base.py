import requests
from datetime import date
from typing import Dict, Any
import logging
from abc import ABC, abstractmethod

from planner.core.errors import ConfigInvalid, ProviderUnavailable
from planner.core.time_utils import split_time_of_day
from planner.core.timeline import PRAYER_NAMES


class PrayerBackend(ABC):
    """Base class for prayer time providers"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def get_prayer_times(self, day: date, latitude: float, longitude: float) -> Dict[str, str]:
        """Get prayer times for a day at a location
        Returns:
            {"Fajr": "HH:MM", ..., "Isha": "HH:MM"}
        Raises:
            ProviderUnavailable if the provider cannot be reached or answers nonsense
        """
        pass

    def _apply_test_times(self, prayer_times: Dict[str, str]) -> Dict[str, str]:
        """Override provider times with test_schedule.times from config, if any"""
        test_times = (self.config.get('test_schedule') or {}).get('times') or {}
        for prayer, time_str in test_times.items():
            if prayer not in PRAYER_NAMES:
                self.logger.warning(f"Ignoring test time for unknown prayer {prayer}")
                continue
            split_time_of_day(time_str)
            self.logger.info(f"Overriding {prayer} with test time: {time_str}")
            prayer_times[prayer] = time_str
        return prayer_times


class AladhanBackend(PrayerBackend):
    """Prayer times backend using api.aladhan.com"""

    BASE_URL = "https://api.aladhan.com/v1/timings"

    def get_prayer_times(self, day: date, latitude: float, longitude: float) -> Dict[str, str]:
        url = f"{self.BASE_URL}/{day.strftime('%d-%m-%Y')}"
        params = {
            'latitude': latitude,
            'longitude': longitude,
            'method': self.config.get('calculation_method', 2),
        }
        timeout = self.config.get('timeout', 15)

        self.logger.info(f"Making API request to {url} with params {params}")
        try:
            response = requests.get(url, params=params, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise ProviderUnavailable(f"Prayer times request for {day} failed: {e}") from e
        except ValueError as e:
            raise ProviderUnavailable(f"Prayer times response for {day} is not JSON") from e

        # The API can answer 200 with an error in the body
        if not isinstance(data, dict) or data.get('code') != 200:
            raise ProviderUnavailable(f"Prayer times API returned an error for {day}: {data!r:.200}")
        timings = (data.get('data') or {}).get('timings')
        if not isinstance(timings, dict):
            raise ProviderUnavailable(f"Prayer times response for {day} has no timings")

        prayer_times = {}
        for prayer in PRAYER_NAMES:
            value = timings.get(prayer)
            if not value:
                raise ProviderUnavailable(f"Prayer times response for {day} is missing {prayer}")
            hour, minute = split_time_of_day(value)
            prayer_times[prayer] = f"{hour:02d}:{minute:02d}"

        prayer_times = self._apply_test_times(prayer_times)
        self.logger.info(f"Prayer times for {day}: {prayer_times}")
        return prayer_times


def create_backend(config: Dict[str, Any]) -> PrayerBackend:
    backend_type = config.get("backend", "aladhan")
    if backend_type != "aladhan":
        raise ConfigInvalid(f"Unsupported prayer backend: {backend_type}")
    return AladhanBackend(config)
