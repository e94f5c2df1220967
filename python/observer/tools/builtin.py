import json

from datetime import datetime, UTC
from typing import Optional
from zoneinfo import ZoneInfo

from .tool import Tool
from ..errors import ToolExecutionError

COUNTRY_TIMEZONES = {
  "AE": "Asia/Dubai",
  "AR": "America/Argentina/Buenos_Aires",
  "AT": "Europe/Vienna",
  "AU": "Australia/Sydney",
  "BE": "Europe/Brussels",
  "BR": "America/Sao_Paulo",
  "CA": "America/Toronto",
  "CH": "Europe/Zurich",
  "CN": "Asia/Shanghai",
  "DE": "Europe/Berlin",
  "DK": "Europe/Copenhagen",
  "EG": "Africa/Cairo",
  "ES": "Europe/Madrid",
  "FI": "Europe/Helsinki",
  "FR": "Europe/Paris",
  "GB": "Europe/London",
  "GR": "Europe/Athens",
  "HK": "Asia/Hong_Kong",
  "ID": "Asia/Jakarta",
  "IE": "Europe/Dublin",
  "IL": "Asia/Jerusalem",
  "IN": "Asia/Kolkata",
  "IT": "Europe/Rome",
  "JP": "Asia/Tokyo",
  "KR": "Asia/Seoul",
  "MX": "America/Mexico_City",
  "NL": "Europe/Amsterdam",
  "NO": "Europe/Oslo",
  "NZ": "Pacific/Auckland",
  "PH": "Asia/Manila",
  "PL": "Europe/Warsaw",
  "PT": "Europe/Lisbon",
  "RU": "Europe/Moscow",
  "SE": "Europe/Stockholm",
  "SG": "Asia/Singapore",
  "TH": "Asia/Bangkok",
  "TR": "Europe/Istanbul",
  "TW": "Asia/Taipei",
  "UA": "Europe/Kyiv",
  "US": "America/New_York",
  "VN": "Asia/Ho_Chi_Minh",
  "ZA": "Africa/Johannesburg",
}


def get_time(country_code: Optional[str] = None) -> str:
  """
  Get the current time, optionally in the main timezone of a country.

  :param country_code: ISO 3166-1 alpha-2 country code (e.g. 'US', 'JP', 'FR'); UTC when omitted
  :type country_code: str
  """
  now = datetime.now(UTC)
  if not country_code:
    return f"The current time in UTC is: {now.isoformat(timespec='seconds')}"

  code = country_code.strip().upper()
  zone = COUNTRY_TIMEZONES.get(code)
  if zone is None:
    raise ToolExecutionError("get_time", f"Unsupported country code: {country_code}")
  local = now.astimezone(ZoneInfo(zone))
  return f"The current time in {code} ({zone}) is: {local.isoformat(timespec='seconds')}"


def text_length(text: str) -> str:
  """
  Returns the length of the input text in characters.

  :param text: Input text to measure
  """
  return json.dumps({"length": len(text)})


def builtin_tools() -> list[Tool]:
  return [Tool(get_time), Tool(text_length)]
