"""Setup (provisioning) services.

This package contains the orchestration helpers that *provision* resources on the
MarkLogic cluster (databases, forests, triggers, CPF pipelines, alerting) through
the management API, each of them create-or-update and safe to re-run.
"""
