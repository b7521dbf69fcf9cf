"""BitTorrent client components: tracker announces, unchoking, webseed downloads and a session RPC client."""

__version__ = "0.1.0"