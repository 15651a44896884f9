"""
Core: Satellite-Coordinated Drone Fleet

Agents exchange messages over an in-process bus (messages.py):

  satellite.py     Coordinator holding the ground-truth map and drone status
  drone_agent.py   Drone think cycle + inbound dispatcher
  behaviors.py     Behavior chain deciding each move (dodging.py, movement.py)

fleet_manager.py wires one satellite and its drones for a simulation run.
"""
