"""
Job 클래스 레지스트리

레코드의 job_class 문자열을 잡 클래스로 해석합니다.

사용 예시:
    registry = JobRegistry()

    @registry.register
    class MailJob(Job):
        ...

    @register_job("reports.daily")
    class DailyReportJob(Job):
        ...
"""

import logging

from job.exception import UnknownJobClassError

logger = logging.getLogger(__name__)


class JobRegistry:
    """job_class 이름 -> 잡 클래스"""

    def __init__(self):
        self._classes: dict[str, type] = {}

    def register(self, cls_or_name=None):
        """
        잡 클래스 등록 데코레이터

        @registry.register 또는 @registry.register("name") 형태로 사용합니다.
        이름을 지정하면 클래스의 job_name도 해당 이름으로 바뀝니다.
        """
        def decorator(cls, name=None):
            if name is not None:
                cls.job_name = name
            key = cls.job_name
            existing = self._classes.get(key)
            if existing is not None and existing is not cls:
                logger.warning(f"Job class {key} re-registered: {existing.__qualname__} -> {cls.__qualname__}")
            self._classes[key] = cls
            return cls

        if isinstance(cls_or_name, type):
            return decorator(cls_or_name)
        return lambda cls: decorator(cls, cls_or_name)

    def get(self, name: str) -> type:
        if name not in self._classes:
            raise UnknownJobClassError(name)
        return self._classes[name]

    def names(self) -> list[str]:
        return sorted(self._classes)

    def __contains__(self, name: str) -> bool:
        return name in self._classes


# 애플리케이션 잡용 기본 레지스트리
default_registry = JobRegistry()


def register_job(cls_or_name=None):
    """default_registry 등록 데코레이터"""
    return default_registry.register(cls_or_name)
