"""ShardKeeper HTTP command surface."""
