VERSION = "0.3.0"
SNIFFPROXY = "sniffproxy " + VERSION
