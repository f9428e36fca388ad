"""
basicar test suite

Structure:
- unit/: Unit tests for individual components
- integration/: End-to-end runs of the CLI on generated videos
- synthetic.py: seeded synthetic images shared by both
"""
