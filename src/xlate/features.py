"""Per-request update policies."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class UpdateFeatureFlags:
    previous_verification: bool = False
    extend: bool = False
    update_gradebook: bool = False

    def apply(
        self,
        *,
        admin_previous: bool,
        admin_gradebook: bool,
        can_extend: bool,
        previous: bool,
        extend: bool,
        gradebook: bool,
    ) -> "UpdateFeatureFlags":
        """Combine admin switches with the flags a request asked for.

        Gradebook sync only ever latches on: once a request enabled it, later
        calls on the same flags never turn it back off.
        """
        self.previous_verification = bool(admin_previous and previous)
        self.extend = bool(can_extend and extend)
        if admin_gradebook and gradebook:
            self.update_gradebook = True
        return self
