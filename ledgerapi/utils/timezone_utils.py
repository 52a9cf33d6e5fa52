"""
타임존 유틸리티

체크인 "오늘" 판정 등 서비스 기준 타임존(settings.TIMEZONE) 시간 처리
"""

from datetime import date, datetime, timedelta
from typing import Tuple

import pytz

from ledgerapi.config import settings


def get_service_timezone():
    return pytz.timezone(settings.TIMEZONE)


def get_local_now() -> datetime:
    """서비스 타임존 기준 현재 시각"""
    return datetime.now(get_service_timezone())


def get_local_today() -> date:
    """서비스 타임존 기준 오늘 날짜"""
    return get_local_now().date()


def get_utc_now() -> datetime:
    return datetime.now(pytz.utc)


def get_month_range(day: date) -> Tuple[date, date]:
    """해당 날짜가 속한 달의 (첫날, 마지막 날)"""
    first = day.replace(day=1)
    next_month = (first + timedelta(days=32)).replace(day=1)
    return first, next_month - timedelta(days=1)

