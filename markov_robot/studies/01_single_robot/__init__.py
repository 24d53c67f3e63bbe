"""
Study 01: Single Robot

Questions to explore:
- How much of its life does the robot spend wandering vs. reacting?
- Does the timeout ever cut a useful state short?
- How many orbs does one battery buy?
- Does it make it back to the station in time?
"""
