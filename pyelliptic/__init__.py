"""
Relaxation solvers for elliptic equations over gridded geophysical fields

Fields are four dimensional (time, level, y, x); an equation is solved independently
over every horizontal (x, y) or meridional (y, z) plane by successive over-relaxation,
with the planes distributed over a pool of worker threads.

Both the conservative form
    d/dx(A dS/dx) + d/dy(B dS/dx) + d/dx(B dS/dy) + d/dy(C dS/dy) = F
and the general linear form
    A Sxx + B Sxy + C Syy + D Sx + E Sy + F S + G = 0
are supported, as well as a direct solver for the one dimensional conservative form.

Slices whose iteration diverges can have their coefficients repaired into an elliptic operator,
after which they are solved again
"""
