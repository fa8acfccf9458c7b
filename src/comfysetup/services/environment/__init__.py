"""Managed environment services."""

from comfysetup.services.environment.import_verifier import ImportVerifier, generate_import_test_script, interpret_output
from comfysetup.services.environment.manager import EnvironmentManager

__all__ = ["EnvironmentManager", "ImportVerifier", "generate_import_test_script", "interpret_output"]
