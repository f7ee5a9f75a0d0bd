from turnwatch.alerts.alert import AlertKey, Subscription
from turnwatch.alerts.store import AlertStore

__all__ = ["AlertKey", "AlertStore", "Subscription"]
