"""샘플 잡 - 테스트용"""

import logging

from job import Job, LastError, RetryPolicy, polynomially_longer, register_job

logger = logging.getLogger(__name__)


@register_job("sample")
class SampleJob(Job):
    """테스트용 샘플 잡"""

    retry_on = (RetryPolicy((ConnectionError,), wait=polynomially_longer, attempts=3),)
    extensions = (LastError(),)

    async def perform(self, message: str = "Hello from SampleJob!", *params):
        logger.info(f"SampleJob executed: message={message}, params={list(params)}")
        return {"message": message, "received_params": list(params)}
