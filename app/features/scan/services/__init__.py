"""
Scan Services

Organized by pipeline step, in the order the orchestrator calls them:

1. rate_limit/ - Per-client scan quota
   - scan_rate_limiter.py: Fixed hourly window, 5 anonymous / 20 authenticated

2. cache/ - Scan result cache
   - scan_cache.py: Results keyed by normalized URL, fresh for 24h

3. detection/ - URL classification
   - url_detector.py: GitHub repository vs product website, normalize_url() cache keys

4. scanning/ - The single outbound fetch
   - repository_scanner.py: GitHub REST API metadata + root listing
   - website_scanner.py: One bounded GET + BeautifulSoup parsing

5. extraction/ - Text heuristics
   - io_extractor.py: Input/output modalities, MCP detection

6. analysis/ - Scoring
   - sr_calculator.py: Weighted SR score, sub-scores, tier
   - diagnostics.py: Actionable suggestions for failing dimensions

7. scan/ - Orchestration
   - scan.py: ScanService.run() ties the steps above together
"""
