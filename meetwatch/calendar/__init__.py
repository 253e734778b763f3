"""Calendar resolution stages: reading, decoding, expansion, overrides, dedupe and assembly."""
