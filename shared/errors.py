class PilotError(Exception):
    pass


class AdbError(PilotError):
    pass


class TranslationError(PilotError):
    def __init__(self, kind, parameter, detail=None):
        message = "action {} missing required parameter: {}".format(kind, parameter)
        if detail:
            message = "action {} has invalid parameter {}: {}".format(
                kind, parameter, detail
            )
        super().__init__(message)
        self.kind = kind
        self.parameter = parameter
        self.detail = detail


class PlanError(PilotError):
    pass


class DeviceNotReadyError(PilotError):
    def __init__(self, device_id, issues):
        super().__init__(
            "device {} not ready: {}".format(device_id, ", ".join(issues) or "unknown")
        )
        self.device_id = device_id
        self.issues = list(issues)
