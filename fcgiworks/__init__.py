"""Building blocks for FastCGI applications: records, sockets, polling, logging, SQL array parameters and SMTP mailing."""

__version__ = "3.1.0"