"""PS Navigation hub: consumer rotation and ZMQ fan-out."""
