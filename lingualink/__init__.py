############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# __init__.py: Root package initialization and version definition
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""LinguaLink - Resilient Backend Balancer and Translation Gateway."""

__version__ = "0.3.0"
