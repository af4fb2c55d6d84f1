import copy
import json
import logging
import math
import os
import threading
from typing import Any, Dict, List, Optional


DEFAULT_CONFIG: Dict[str, Any] = {
    'enabled': True,
    'rules': {
        'eligible_label_prefix': 'CLUSTER',  # only labels starting with this score
        'points_per_first_visit': 1,
        'points_per_repeat_visit': 0,
        'award_only_first_visit': True,      # repeat visits give nothing when set
        'min_group_size': 1,
        'max_group_size': 9999,
        'min_points_required': 3,
        # { 'CLUSTER1': {'award_points': 1, 'redeemable': True, 'redeem_points': 1}, ... }
        'cluster_rules': {},
    },
}


def normalize_label(label) -> str:
    return str(label or '').strip().upper()


def coerce_points(value) -> Optional[int]:
    """Rule values are stored unvalidated; turn one into whole points.

    Returns None for anything that is not a finite, non-negative number.
    Fractions are truncated.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return int(number)


def _merge_document(base: Dict[str, Any], partial: Dict[str, Any]) -> Dict[str, Any]:
    """Top level shallow, ``rules`` one level deep, ``cluster_rules`` merged per cluster.

    A cluster whose value is None is removed.
    """
    merged = copy.deepcopy(base)
    if isinstance(partial.get('enabled'), bool):
        merged['enabled'] = partial['enabled']
    rules = partial.get('rules')
    if isinstance(rules, dict):
        cluster_rules = rules.get('cluster_rules')
        merged['rules'].update({k: copy.deepcopy(v) for k, v in rules.items() if k != 'cluster_rules'})
        if isinstance(cluster_rules, dict):
            current = merged['rules'].get('cluster_rules')
            if not isinstance(current, dict):
                current = {}
            for key, rule in cluster_rules.items():
                if rule is None:
                    current.pop(normalize_label(key), None)
                else:
                    current[normalize_label(key)] = copy.deepcopy(rule)
            merged['rules']['cluster_rules'] = current
    return merged


class JsonConfigStore:
    """Reads and writes the rule document as a JSON file."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return None
        with open(self.path, 'r', encoding='utf-8') as fh:
            return json.load(fh)

    def save(self, document: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as fh:
            json.dump(document, fh, indent=2)


class RuleConfig:
    """Process-wide scoring rules, shared by reference with the engines.

    Reads return deep copies so callers never observe a half-applied update.
    Writes are persisted to ``store`` on a best-effort basis: a failed save
    is logged and the in-memory document stays authoritative.
    """

    def __init__(self, store: Optional[JsonConfigStore] = None, logger: Optional[logging.Logger] = None):
        self._store = store
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._config = copy.deepcopy(DEFAULT_CONFIG)

    def load(self) -> Dict[str, Any]:
        """Overlay the stored document (if any) on the defaults."""
        if self._store is None:
            return self.get()
        try:
            loaded = self._store.load()
        except (OSError, ValueError) as exc:
            self._logger.warning(f"[config-load] ignoring unreadable rule store {self._store.path}: {exc}")
            loaded = None
        with self._lock:
            if isinstance(loaded, dict):
                self._config = _merge_document(DEFAULT_CONFIG, loaded)
                self._logger.info(f"[config-load] rules loaded from {self._store.path}")
            return copy.deepcopy(self._config)

    def get(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._config)

    def update(self, partial: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        with self._lock:
            if isinstance(partial, dict):
                self._config = _merge_document(self._config, partial)
            snapshot = copy.deepcopy(self._config)
        self._persist(snapshot)
        return snapshot

    def reset(self) -> Dict[str, Any]:
        with self._lock:
            self._config = copy.deepcopy(DEFAULT_CONFIG)
            snapshot = copy.deepcopy(self._config)
        self._persist(snapshot)
        return snapshot

    @property
    def enabled(self) -> bool:
        with self._lock:
            return bool(self._config.get('enabled'))

    def get_rule(self, key: str, fallback: Any = None) -> Any:
        with self._lock:
            rules = self._config.get('rules') or {}
            if key in rules:
                return copy.deepcopy(rules[key])
            return fallback

    def get_cluster_rule(self, label) -> Optional[Dict[str, Any]]:
        key = normalize_label(label)
        with self._lock:
            cluster_rules = (self._config.get('rules') or {}).get('cluster_rules') or {}
            rule = cluster_rules.get(key)
            return copy.deepcopy(rule) if isinstance(rule, dict) else None

    def cluster_labels(self) -> List[str]:
        with self._lock:
            cluster_rules = (self._config.get('rules') or {}).get('cluster_rules') or {}
            return sorted(key for key, rule in cluster_rules.items() if isinstance(rule, dict))

    def _persist(self, snapshot: Dict[str, Any]) -> None:
        if self._store is None:
            return
        try:
            self._store.save(snapshot)
        except Exception as exc:
            self._logger.warning(f"[config-save] failed to persist rules to {self._store.path}: {exc}")
