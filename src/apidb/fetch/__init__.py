"""Source fetching: SSRF-guarded HTTP, local files, and the blob store."""
