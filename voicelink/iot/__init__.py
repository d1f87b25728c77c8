"""Remotely controllable things, their JSON descriptors and their manager."""