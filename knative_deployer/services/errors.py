class DeployerException(Exception):
    pass


class IntegrityException(DeployerException):
    pass


class NotFoundException(DeployerException):
    pass


class PodLookupError(DeployerException):
    """Existence check for a pod failed for a reason other than NotFound."""

    def __init__(self, message: str, *, namespace: str, name: str) -> None:
        super().__init__(message)
        self.namespace = namespace
        self.name = name


class PodPhaseError(DeployerException):
    def __init__(self, message: str, *, namespace: str, name: str, phase: str) -> None:
        super().__init__(message)
        self.namespace = namespace
        self.name = name
        self.phase = phase


class WaitTimeoutError(DeployerException):
    pass
