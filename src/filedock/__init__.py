"""filedock: self-hosted file server with a media delivery pipeline."""
