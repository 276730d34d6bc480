"""Serial gateway from a Modbus RTU master to an SPNet device: CRCs, byte stuffing, workers."""

__version__ = "0.1.0"