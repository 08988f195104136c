"""
Extractor App - Paginated, Rate-Limited Fetching

Responsibilities:
- Fetch StrafesNET pages with a static API key and a per-request timeout
- Track remaining burst capacity and cool down when it runs low
- Walk paginated listings in concurrent bursts until an empty page
- Deduplicate overlapping pages by stable identifier
- Resolve small and large map thumbnails by asset id

Outputs:
- Deduplicated world-record batches (with referenced users)
- The full map catalog with thumbnail URLs merged in
"""
