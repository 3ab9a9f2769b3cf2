"""
sysconf_applier package
-----------------------
Declarative, idempotent Windows configuration engine. Plans of registry,
process, package, filesystem and external-command actions are checked and
applied in order, with per-action failure policy and a structured report.
"""

__version__ = "0.1.0"
