__all__ = [
    'WakeguardError',
    'WakeguardRuntimeError',
    'AddressValidationError',
    'ProbeError',
    'TransmissionError',
    'PersistenceDegraded',
]

class WakeguardError(Exception):
    pass

class WakeguardRuntimeError(WakeguardError):
    pass

class AddressValidationError(WakeguardError, ValueError):
    def __init__(self, message: str, value: object = None):
        super().__init__(message)
        self.value = value

class ProbeError(WakeguardError):
    pass

class TransmissionError(WakeguardError):
    pass

class PersistenceDegraded(WakeguardError):
    pass

