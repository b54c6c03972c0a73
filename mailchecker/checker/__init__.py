"""
Checker package for Mailchecker.

Provides the DNS resolver, the recursive SPF lookup counter, the six
protocol evaluators (MX, SPF, DKIM, DMARC, MTA-STS, TLS-RPT), the
orchestrating engine, and the snapshot diff engine.
"""
