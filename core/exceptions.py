from __future__ import annotations


class RobustGateError(Exception):
    pass


class ConfigError(RobustGateError):
    pass


class SingularMatrixError(RobustGateError, ArithmeticError):
    pass


class DimensionMismatchError(RobustGateError, ValueError):
    pass
