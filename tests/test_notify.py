import inspiration_cards.lib as lib


def test_notify_survives_missing_notify_send(monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError("notify-send")

    monkeypatch.setattr(lib.subprocess, "run", missing)
    lib.notify("hello")


def test_notify_throttled_per_key(monkeypatch):
    sent = []
    clock = [100.0]
    monkeypatch.setattr(lib, "_NOTIFY_LAST", {})
    monkeypatch.setattr(lib, "notify", lambda message: sent.append(message))
    monkeypatch.setattr(lib.time, "monotonic", lambda: clock[0])

    lib.notify_throttled("Failed to save card, please retry")
    lib.notify_throttled("Failed to save card, please retry")
    lib.notify_throttled("Another card is already pinned")
    clock[0] += lib.NOTIFY_MIN_INTERVAL_SEC
    lib.notify_throttled("Failed to save card, please retry")

    assert sent == [
        "Failed to save card, please retry",
        "Another card is already pinned",
        "Failed to save card, please retry",
    ]
