"""Shared test helpers for Roma Timer."""

from romatimer.timer.engine import TimerEngine


class SignalCollector:
    """Utility to capture pyqtSignal emissions into a list."""

    def __init__(self):
        self.items: list = []

    def slot(self, *args):
        self.items.append(args if len(args) > 1 else args[0] if args else None)

    def __call__(self, *args):
        self.slot(*args)

    def __len__(self):
        return len(self.items)

    def __getitem__(self, idx):
        return self.items[idx]

    @property
    def last(self):
        return self.items[-1] if self.items else None

    def clear(self):
        self.items.clear()


def complete_session(engine: TimerEngine) -> bool:
    """Fast-complete the current session: start it if needed and tick to the end."""
    if not engine.is_running:
        engine.start()
    state = engine.get_state()
    return engine.tick(state.duration - state.elapsed)
