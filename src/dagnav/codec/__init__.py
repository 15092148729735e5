"""Block codecs.

This package contains:
- dagpb: dag-pb (protobuf) PBNode decoding and encoding
- unixfs: UnixFS Data messages and directory link extraction
- registry: decoders and encoders keyed by multicodec name
"""
