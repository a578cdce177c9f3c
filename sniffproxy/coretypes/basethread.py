import threading


class BaseThread(threading.Thread):
    """
    A named daemon thread. Relay pumps and helpers never keep the process alive.
    """

    def __init__(self, name, *args, daemon=True, **kwargs):
        super().__init__(name=name, *args, daemon=daemon, **kwargs)
