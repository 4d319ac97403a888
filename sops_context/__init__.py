"""Line-delimited JSON-RPC bridge between an editor and the sops tool."""

__version__ = "0.3.0"
