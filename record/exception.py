"""
Record 관련 예외 클래스 정의
"""


class RecordError(Exception):
    """Record 기본 예외"""
    pass


class RecordNotFoundError(RecordError):
    """job_id에 해당하는 레코드가 없음"""
    def __init__(self, job_id: str, message: str = None):
        self.job_id = job_id
        self.message = message or f"Record not found: job_id={job_id}"
        super().__init__(self.message)


class RecordValidationError(RecordError):
    """레코드가 스키마 제약을 만족하지 않음"""
    def __init__(self, job_id: str | None, message: str):
        self.job_id = job_id
        self.message = f"Invalid record (job_id={job_id}): {message}"
        super().__init__(self.message)


class SerializationError(RecordError):
    """복합 필드(JSON) 인코딩/디코딩 실패"""
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = f"Malformed {field}: {message}"
        super().__init__(self.message)


class ConfigurationError(RecordError):
    """테이블/컬럼/잡 클래스 설정 오류"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class IdentityMismatchError(RecordError):
    """잡 인스턴스와 레코드의 클래스 또는 식별자가 일치하지 않음"""
    def __init__(self, expected: str, found: str, message: str = None):
        self.expected = expected
        self.found = found
        self.message = message or f"Identity mismatch: expected {expected}, found {found}"
        super().__init__(self.message)
