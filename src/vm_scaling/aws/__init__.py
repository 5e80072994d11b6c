"""AWS resource managers used by the scaling tasks."""
