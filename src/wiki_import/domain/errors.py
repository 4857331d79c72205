class ImportPipelineError(Exception):
    """Failure on the mandatory import path, carrying the HTTP status to report."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ImportInputError(ImportPipelineError):
    status_code = 400


class ImportUnauthorizedError(ImportPipelineError):
    status_code = 401


class ImportForbiddenError(ImportPipelineError):
    status_code = 403


class PageNotFoundError(ImportPipelineError):
    status_code = 404


class PolicyViolationError(ImportPipelineError):
    status_code = 400


class SynthesisFailedError(ImportPipelineError):
    status_code = 502
