"""The two lab tasks: horizontal scaling and auto-scaling."""
