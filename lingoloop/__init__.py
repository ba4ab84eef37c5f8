"""
Lingoloop adaptive content engine.

Bulk generation of validated practice exercises through an external
generative AI service, and rule-based proficiency analysis over learner
results.
"""

__version__ = "0.1.0"
