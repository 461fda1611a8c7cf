"""
Configuration management and loading.

Handles the database location, quota gate mode and the plan catalog.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ai_quota_guard.core.policy import BASIC_PLAN, DEFAULT_POLICY, QuotaPolicy
from ai_quota_guard.core.quota import QuotaMode
from ai_quota_guard.storage.db import DEFAULT_DB_PATH
from ai_quota_guard.storage.models import Feature, SubscriptionPlan


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    database_path: str = DEFAULT_DB_PATH
    quota_mode: QuotaMode = QuotaMode.ENFORCE
    fallback_plan: str = BASIC_PLAN
    policy: QuotaPolicy = field(default_factory=lambda: DEFAULT_POLICY)

    def __post_init__(self):
        """Validate the fallback plan exists in the catalog."""
        if not self.policy.has_plan(self.fallback_plan):
            raise ValueError(f"fallback_plan '{self.fallback_plan}' is not defined in plans")


def default_config() -> AppConfig:
    """Configuration with the built-in Basic/Pro catalog."""
    return AppConfig()


def load_config(path: Optional[str]) -> AppConfig:
    """Load configuration from ``path``, or the defaults when ``path`` is None."""
    if path is None:
        return default_config()
    return load_app_config(path)


def load_app_config(path: str) -> AppConfig:
    """Load and validate application configuration from a YAML file.

    Strict validation ensures no silent misconfigurations that could
    leave a feature unmetered or a plan with the wrong limits.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'database', 'quota', 'plans'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    # Database section
    database_path = DEFAULT_DB_PATH
    database_data = raw_config.get('database', {})
    if not isinstance(database_data, dict):
        raise ValueError("'database' must be a dictionary")
    _reject_unknown(database_data, {'path'}, "database")
    if 'path' in database_data:
        if not isinstance(database_data['path'], str) or not database_data['path'].strip():
            raise ValueError("'database.path' must be a non-empty string")
        database_path = database_data['path']

    # Quota section
    quota_data = raw_config.get('quota', {})
    if not isinstance(quota_data, dict):
        raise ValueError("'quota' must be a dictionary")
    _reject_unknown(quota_data, {'mode', 'fallback_plan'}, "quota")

    mode_str = quota_data.get('mode', QuotaMode.ENFORCE.value)
    if not isinstance(mode_str, str):
        raise ValueError("'quota.mode' must be a string")
    try:
        mode = QuotaMode(mode_str.lower())
    except ValueError:
        valid_modes = [m.value for m in QuotaMode]
        raise ValueError(f"'quota.mode' must be one of: {valid_modes}")

    fallback_plan = quota_data.get('fallback_plan', BASIC_PLAN)
    if not isinstance(fallback_plan, str):
        raise ValueError("'quota.fallback_plan' must be a string")

    # Plans section
    if 'plans' in raw_config:
        plans_data = raw_config['plans']
        if not isinstance(plans_data, dict) or not plans_data:
            raise ValueError("'plans' must be a non-empty dictionary")
        plans = []
        for plan_name, plan_data in plans_data.items():
            if not isinstance(plan_data, dict):
                raise ValueError(f"Plan '{plan_name}' must be a dictionary")
            plans.append(_parse_plan(str(plan_name), plan_data))
        policy = QuotaPolicy.from_plans(plans)
    else:
        policy = DEFAULT_POLICY

    return AppConfig(
        database_path=database_path,
        quota_mode=mode,
        fallback_plan=fallback_plan,
        policy=policy
    )


def _parse_plan(name: str, data: Dict[str, Any]) -> SubscriptionPlan:
    """Parse and validate one plan definition.

    Args:
        name: Plan identifier
        data: Plan configuration data

    Returns:
        Validated SubscriptionPlan

    Raises:
        ValueError: If configuration is invalid
    """
    path = f"plans.{name}"
    _reject_unknown(data, {'display_name', 'price', 'billing_cycle', 'limits', 'is_active'}, path)

    price = data.get('price', 0)
    if isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
        raise ValueError(f"'price' in {path} must be >= 0")

    billing_cycle = data.get('billing_cycle', 'monthly')
    if billing_cycle not in ('monthly', 'yearly'):
        raise ValueError(f"'billing_cycle' in {path} must be 'monthly' or 'yearly'")

    limits_data = data.get('limits', {}) or {}
    if not isinstance(limits_data, dict):
        raise ValueError(f"'limits' in {path} must be a dictionary")

    valid_features = {f.value for f in Feature}
    limits: Dict[str, Optional[int]] = {}
    for feature_name, limit in limits_data.items():
        if feature_name not in valid_features:
            raise ValueError(
                f"Unknown feature '{feature_name}' in {path}.limits; "
                f"expected one of: {sorted(valid_features)}"
            )
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
            raise ValueError(f"Limit for '{feature_name}' in {path} must be a non-negative integer or null")
        limits[feature_name] = limit

    return SubscriptionPlan(
        name=name,
        display_name=str(data.get('display_name', name.title())),
        price=float(price),
        billing_cycle=billing_cycle,
        limits=limits,
        is_active=bool(data.get('is_active', True))
    )


def _reject_unknown(data: Dict[str, Any], allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")
