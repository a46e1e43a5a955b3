from mpilot.domains.verify.service import CheckResult, Verifier, VerifyMethod, VerifyResult

__all__ = ["CheckResult", "Verifier", "VerifyMethod", "VerifyResult"]
