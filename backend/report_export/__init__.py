"""
Report export backend: asynchronous export-to-file jobs for hosted reports.
"""
