import threading

ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token", "X-Admin-Actor": "ops@example.com"}

VALID_ANSWERS = {
    "role": "fitter_builder",
    "share_channels": ["reddit", "instagram"],
    "learn_channels": ["youtube"],
    "spend_bracket": "1500_3000",
    "uses": ["track builds"],
    "buy_frequency": "monthly",
    "share_frequency": "weekly_plus",
    "city_region": "Scottsdale, AZ",
    "terms_accepted": True,
}

# Scores zero under every table version
PLAIN_ANSWERS = {
    "role": "golfer",
    "share_channels": [],
    "learn_channels": [],
    "spend_bracket": "<300",
    "uses": [],
    "buy_frequency": "never",
    "share_frequency": "never",
    "city_region": "Boston",
    "terms_accepted": True,
}


class RecordingNotifier:
    """Stands in for NotificationService; remembers what would have been sent."""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def notify(self, applicant_id, event_type):
        with self._lock:
            self.events.append((applicant_id, event_type))
        return True

    def of_type(self, event_type):
        return [applicant_id for applicant_id, kind in self.events if kind == event_type]
