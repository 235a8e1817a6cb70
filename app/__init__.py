# Package initialization
