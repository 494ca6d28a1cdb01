"""
Job 관련 예외 클래스 정의
"""

from record.exception import ConfigurationError


class JobError(Exception):
    """Job 기본 예외"""
    pass


class JobNotBoundError(JobError):
    """Lifecycle에 바인딩되지 않은 잡에서 저장소 작업 호출"""
    def __init__(self, job_name: str, job_id: str):
        self.job_name = job_name
        self.job_id = job_id
        self.message = f"{job_name} (job_id={job_id}) is not bound to a lifecycle"
        super().__init__(self.message)


class JobTimeoutError(JobError):
    """perform 실행 시간 초과"""
    def __init__(self, job_id: str, seconds: float):
        self.job_id = job_id
        self.seconds = seconds
        self.message = f"Job timed out after {seconds}s: job_id={job_id}"
        super().__init__(self.message)


class UnknownJobClassError(ConfigurationError):
    """레지스트리에 등록되지 않은 job_class"""
    def __init__(self, job_class: str):
        self.job_class = job_class
        super().__init__(f"Unknown job class: {job_class}")
