"""
Book extraction core package.

Users submit PDF books for AI-driven extraction and mobile reformatting.
The extraction subsystem keeps every submitted job in a single store, runs
at most one extraction at a time in submission order, and keeps finished
jobs across restarts through a history repository.
"""
