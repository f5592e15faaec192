"""
Job lifecycle: correlation store, coordinator and shutdown.
"""
