"""Category-scoped dynamic attributes for listings.

``schema`` manages definitions, ``values`` stores per-listing values, ``filters``
compiles attribute search, ``visibility`` evaluates conditional display and
``authoring`` ties them together for listing submissions.
"""
