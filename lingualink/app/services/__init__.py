############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# __init__.py: Services package exports
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Services for LinguaLink."""

from lingualink.app.services.executor import RequestExecutor
from lingualink.app.services.translation import TranslationClient, TranslationResult

__all__ = ["RequestExecutor", "TranslationClient", "TranslationResult"]
