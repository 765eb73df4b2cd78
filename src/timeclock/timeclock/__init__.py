"""Site Time Clock package.

This package is organized by feature modules (geo, schedules, sessions,
payroll, monitor, ...) with a thin Flask controller layer and service/repository
layers behind it.
"""
