# vlite/admission.py
from typing import Callable, NamedTuple, Union


class AdmissionDecision(NamedTuple):
    allowed: bool
    reason: str = ""


# Licensing/quota lives elsewhere; the queue only sees pass/fail for a file count.
AdmissionGate = Callable[[int], Union[AdmissionDecision, bool]]


def allow_all(file_count: int) -> AdmissionDecision:
    return AdmissionDecision(True)


def check(gate: AdmissionGate, file_count: int) -> AdmissionDecision:
    result = gate(file_count)
    if isinstance(result, AdmissionDecision):
        return result
    return AdmissionDecision(bool(result), "" if result else "Not allowed")
