"""Replica Search Node (RSN).

Node-local supervisor for a replicating search server:
 - provisions and mounts the durable volume holding the server's data home
 - synchronizes the configuration tree with the master-authored templates
   without clobbering files the server replicates itself
 - launches and watches the server process
 - requests a full node recycle on any failure or topology change
"""
