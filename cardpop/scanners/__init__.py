"""Page fetching: lightweight requests and the headless browser."""
