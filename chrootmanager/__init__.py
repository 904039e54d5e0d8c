"""chrootmanager — create and enter Gentoo chroots."""

__version__ = "0.1.0"
