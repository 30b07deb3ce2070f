"""
Stock data fetch service.

Pulls instrument metadata and daily/weekly/monthly price bars from the Tushare
Pro API into a relational store:
- Trading-calendar aware date resolution with a weekday fallback
- Bounded-concurrency, rate-limited fetch jobs with retry
- Chunked bulk inserts
- Persistent task records with live progress
"""

__version__ = "1.0.0"
