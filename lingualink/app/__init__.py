############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# __init__.py: Application package initialization
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""LinguaLink Application Package."""

from lingualink import __version__

__all__ = ["__version__"]
