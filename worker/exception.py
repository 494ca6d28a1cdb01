"""
Worker 관련 예외 클래스 정의
"""


class WorkerError(Exception):
    """Worker 기본 예외"""
    pass


class WorkerAlreadyRunningError(WorkerError):
    """이미 실행 중인 워커를 다시 시작"""
    def __init__(self, description: str):
        self.description = description
        self.message = f"Worker is already running: {description}"
        super().__init__(self.message)
