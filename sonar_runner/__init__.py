"""
Launch a SonarQube analysis in a forked JVM.
"""

__version__ = "2.4.0"
