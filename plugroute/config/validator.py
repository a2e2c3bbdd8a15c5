"""Configuration validator utilities for plugroute.

Provides functions to validate configuration dictionaries before they are
used to build a router, reporting every problem rather than the first.
"""

from typing import Any, Dict, List, Tuple

from pydantic import ValidationError

from plugroute.definitions.models import BUILTIN_TOOLS
from .schema import MatchingConfig, RouterConfig


class ConfigValidator:
    """Utility class for validating plugroute configurations."""

    @staticmethod
    def validate_config(config_dict: Dict) -> Tuple[bool, List[str]]:
        """Validate a configuration dictionary.

        Args:
            config_dict: Configuration dictionary to validate

        Returns:
            Tuple of (is_valid, error_messages)
        """
        errors: List[str] = []

        if not isinstance(config_dict, dict):
            return False, [f"Error: configuration must be a mapping, got {type(config_dict).__name__}"]

        try:
            RouterConfig.model_validate(config_dict)
            return True, []
        except ValidationError as e:
            for error in e.errors():
                field = '.'.join(str(x) for x in error['loc'])
                msg = error['msg']
                errors.append(f"{field}: {msg}")
            return False, errors

    @staticmethod
    def validate_tool_aliases(extra: List[str], aliases: Dict[str, str]) -> Tuple[bool, List[str]]:
        """Every alias must point at a built-in or extra token.

        Returns:
            Tuple of (is_valid, error_messages)
        """
        errors: List[str] = []
        if not isinstance(extra, list):
            errors.append(f"Error: tools.extra must be a list, got {type(extra).__name__}")
            extra = []
        if not isinstance(aliases, dict):
            errors.append(f"Error: tools.aliases must be a mapping, got {type(aliases).__name__}")
            aliases = {}

        for token in extra:
            if not isinstance(token, str):
                errors.append(f"Error: tool token {token!r} must be a string")
            elif token != token.strip() or not token:
                errors.append(f"Error: tool token '{token}' must be non-empty without surrounding spaces")

        known = set(BUILTIN_TOOLS) | {t for t in extra if isinstance(t, str)}
        for alias, target in aliases.items():
            if not isinstance(target, str):
                errors.append(f"Error: alias '{alias}' must map to a tool token string, got {target!r}")
            elif target not in known:
                errors.append(f"Error: alias '{alias}' points at unknown tool token '{target}'")
        return not errors, errors

    @staticmethod
    def validate_matching_config(matching: Dict) -> Tuple[bool, List[str]]:
        """Validate matcher policy settings.

        Returns:
            Tuple of (is_valid, warnings/errors)
        """
        issues: List[str] = []

        if not isinstance(matching, dict):
            return False, [f"Error: matching must be a mapping, got {type(matching).__name__}"]

        try:
            config = MatchingConfig.model_validate(matching)
        except ValidationError as e:
            for error in e.errors():
                issues.append(f"Error: {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
            return False, issues

        if config.tier_bonus > 0.05:
            issues.append(
                f"Warning: tier_bonus {config.tier_bonus} is large; a model tier "
                "preference may outrank a better textual match."
            )

        if config.min_score >= 0.5:
            issues.append(
                f"Warning: min_score {config.min_score} is high. Many requests will get NO_MATCH."
            )

        if config.tie_epsilon >= config.tier_bonus and config.tier_bonus > 0:
            issues.append("Warning: tie_epsilon >= tier_bonus, so the tier bonus can never break a tie.")

        return True, issues

    @staticmethod
    def test_configuration(config_dict: Dict) -> Dict[str, Any]:
        """Run comprehensive configuration tests.

        Args:
            config_dict: Configuration to test

        Returns:
            Dictionary with test results
        """
        results: Dict[str, Any] = {
            "overall_valid": True,
            "tests": {}
        }

        # Test 1: Basic schema validation
        is_valid, errors = ConfigValidator.validate_config(config_dict)
        results["tests"]["schema_validation"] = {
            "valid": is_valid,
            "errors": errors
        }
        if not is_valid:
            results["overall_valid"] = False

        if not isinstance(config_dict, dict):
            results["overall_valid"] = False
            return results

        # Test 2: Tool vocabulary
        tools = config_dict.get("tools")
        if tools is None:
            tools = {}
        if isinstance(tools, dict):
            is_valid, errors = ConfigValidator.validate_tool_aliases(
                tools.get("extra") or [], tools.get("aliases") or {}
            )
        else:
            is_valid, errors = False, [f"Error: tools must be a mapping, got {type(tools).__name__}"]
        results["tests"]["tool_vocabulary"] = {
            "valid": is_valid,
            "errors": errors
        }
        if not is_valid:
            results["overall_valid"] = False

        # Test 3: Matching policy
        matching = config_dict.get("matching")
        is_valid, issues = ConfigValidator.validate_matching_config({} if matching is None else matching)
        results["tests"]["matching_validation"] = {
            "valid": is_valid,
            "warnings_errors": issues
        }
        if not is_valid:
            results["overall_valid"] = False

        return results
