"""Building blocks shared by steps and workflows."""
