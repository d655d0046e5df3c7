"""Two-way mirror of git-appraise reviews and Phabricator Differential."""

__version__ = "0.4.0"
