"""
What has already been registered in Mackerel by this process.

Entries are added only after the corresponding API call succeeded and are
never evicted; a restart starts from scratch. Export cycles and readers
may run on different threads, so every access goes through the lock.
"""

import threading
from typing import Dict, Iterable, Optional, Set


class RegistrationCache:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._host_ids: Dict[str, str] = {}
        self._service_roles: Dict[str, Set[str]] = {}
        self._metric_patterns: Set[str] = set()

    # hosts: custom identifier -> Mackerel host id

    def host_id(self, custom_identifier: str) -> Optional[str]:
        with self._lock:
            return self._host_ids.get(custom_identifier)

    def set_host_id(self, custom_identifier: str, host_id: str) -> None:
        with self._lock:
            self._host_ids[custom_identifier] = host_id

    # services and their roles

    def has_service(self, service: str) -> bool:
        with self._lock:
            return service in self._service_roles

    def add_service(self, service: str, roles: Iterable[str] = ()) -> None:
        with self._lock:
            self._service_roles.setdefault(service, set()).update(roles)

    def has_role(self, service: str, role: str) -> bool:
        with self._lock:
            return role in self._service_roles.get(service, ())

    def add_role(self, service: str, role: str) -> None:
        with self._lock:
            self._service_roles.setdefault(service, set()).add(role)

    # graph definition metric patterns

    def unregistered_patterns(self, patterns: Iterable[str]) -> Set[str]:
        with self._lock:
            return {p for p in patterns if p not in self._metric_patterns}

    def add_patterns(self, patterns: Iterable[str]) -> None:
        with self._lock:
            self._metric_patterns.update(patterns)
