"""RSA Writer: credit-metered landing page scraping and ad copy generation.

Sub-packages:
- ``config``      - settings and membership tier definitions
- ``core``        - validation, credits, job state, persistence, logging
- ``scraper``     - content-retrieval provider and batch scrape orchestrator
- ``generation``  - text-generation provider and copy generation orchestrator
- ``pipeline``    - caller-facing operations
- ``export``      - CSV and XLSX export of generated copy
"""

__version__ = "0.1.0"
